"""
Budget Tracker — Demo Seed
Wipes the store and loads one admin user with a few projects and expenses.
"""
import logging

from budget_tracker import db
from budget_tracker.auth import hash_password

logger = logging.getLogger(__name__)

DEMO_ADMIN = {"name": "Hugo Martin", "email": "hugo@selego.co", "password": "password123"}

DEMO_PROJECTS = [
    {"name": "Refonte Site Web", "budget": 50000,
     "description": "Modernisation complète du site corporate avec nouveau design et optimisation SEO",
     "expenses": [(12000, "Design", "Maquettes Figma et charte graphique"),
                  (18500, "Développement", "Intégration front et API")]},
    {"name": "Application Mobile iOS", "budget": 80000,
     "description": "Développement d'une application mobile native pour iOS",
     "expenses": [(45000, "Développement", "Sprint de développement React Native"),
                  (22000, "RH", "Freelance iOS senior")]},
    {"name": "Campagne Marketing Q1", "budget": 30000,
     "description": "Campagne marketing digital pour le premier trimestre",
     "expenses": [(21000, "Marketing", "Facebook Ads et Instagram"),
                  (12500, "Marketing", "Campagne Google Ads")]},
]


def seed() -> dict:
    db.reset_db()
    admin = db.create("users", {"name": DEMO_ADMIN["name"], "email": DEMO_ADMIN["email"],
                                "password": hash_password(DEMO_ADMIN["password"]),
                                "role": "admin", "avatar": None})
    projects = []
    for demo in DEMO_PROJECTS:
        project = db.create("projects", {
            "name": demo["name"], "budget": demo["budget"], "description": demo["description"],
            "status": "active", "owner_id": admin["id"], "owner_name": admin["name"],
            "owner_email": admin["email"],
            "budget_warning_sent": False, "budget_exceeded_sent": False,
        })
        for amount, category, description in demo["expenses"]:
            db.create("expenses", {
                "project_id": project["id"], "project_name": project["name"],
                "amount": amount, "category": category, "description": description,
                "created_by_user_id": admin["id"], "created_by_user_name": admin["name"],
                "created_by_user_email": admin["email"],
            })
        projects.append(project)
    logger.info("Seeded %d projects for %s", len(projects), admin["email"])
    return {"admin": admin, "projects": projects}
