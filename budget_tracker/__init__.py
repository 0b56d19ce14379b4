"""
Budget Tracker — Modular Backend Package (v1.2.0)

Architecture:
  budget_tracker/
  ├── config/        — Environment constants, thresholds, feature flags
  ├── db/            — Document store (JSON file, PostgreSQL upgrade path)
  ├── errors/        — Error taxonomy, API error handlers, capture()
  ├── auth/          — JWT, password hashing, ownership / role checks
  ├── budget/        — Budget evaluator (spent, percentage, remaining)
  ├── notifications/ — Threshold notification gate + background dispatch
  ├── digest/        — Daily at-risk budget report per owner
  ├── categorizer/   — Keyword + Claude expense categorization
  ├── templates/     — HTML email rendering (French)
  ├── brevo/         — Brevo transactional email transport
  └── server.py      — FastAPI routing layer

Each module is self-contained with clear imports and no circular dependencies.
"""
