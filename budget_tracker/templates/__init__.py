"""
Budget Tracker — Email Templates

HTML rendering for the three outbound emails (all in French):
  - warning   — project crossed the warning threshold (≥80%)
  - exceeded  — project crossed 100% of its budget
  - digest    — daily summary of at-risk projects for one owner

Every renderer returns (subject, html). User-provided text is escaped.
"""
from datetime import date
from html import escape

from budget_tracker.config import APP_URL

NNBSP = "\u202f"  # fr-FR thousands separator (narrow no-break space)

FR_WEEKDAYS = ["lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"]
FR_MONTHS = ["janvier", "février", "mars", "avril", "mai", "juin", "juillet",
             "août", "septembre", "octobre", "novembre", "décembre"]

STATUS_STYLE = {
    "over": {"label": "Dépassé", "color": "#dc2626", "bg": "#fee2e2"},
    "warning": {"label": "À risque", "color": "#f59e0b", "bg": "#fef3c7"},
}


# ============================================================
# FORMATTING
# ============================================================
def format_number(value: float) -> str:
    """fr-FR grouping: 12 345,5 (at most 2 decimals, trailing zeros dropped)."""
    value = round(float(value or 0), 2)
    sign = "-" if value < 0 else ""
    whole, _, frac = f"{abs(value):.2f}".partition(".")
    grouped = f"{int(whole):,}".replace(",", NNBSP)
    frac = frac.rstrip("0")
    return f"{sign}{grouped},{frac}" if frac else f"{sign}{grouped}"


def format_eur(value: float) -> str:
    return f"{format_number(value)} €"


def format_date_fr(d: date) -> str:
    return f"{FR_WEEKDAYS[d.weekday()]} {d.day} {FR_MONTHS[d.month - 1]} {d.year}"


# ============================================================
# ALERT MESSAGE (plain text)
# ============================================================
def budget_alert_message(project_name: str, budget: float, total_spent: float, percentage: float) -> str:
    """Short human-readable status line for a project's budget."""
    remaining = budget - total_spent
    if percentage >= 100:
        return (f"Attention ! Votre projet \"{project_name}\" a dépassé son budget de "
                f"{format_eur(total_spent - budget)} ({percentage:.0f}%). Il est temps de revoir vos dépenses !")
    if percentage >= 90:
        return (f"Alerte ! Le projet \"{project_name}\" a consommé {percentage:.0f}% de son budget. "
                f"Il ne reste que {format_eur(remaining)}.")
    if percentage >= 80:
        return (f"Attention, le projet \"{project_name}\" approche de son budget limite "
                f"({percentage:.0f}% utilisé). Restant : {format_eur(remaining)}.")
    return f"Le projet \"{project_name}\" est sous contrôle ({percentage:.0f}% du budget utilisé)."


# ============================================================
# THRESHOLD EMAILS
# ============================================================
def render_exceeded_email(project: dict, evaluation: dict) -> tuple:
    name = escape(project.get("name", ""))
    owner = escape(project.get("owner_name") or "")
    overspent = evaluation["total_spent"] - evaluation["budget"]
    subject = f"Budget dépassé - {project.get('name', '')}"
    html = f"""
      <h2>Alerte Budget</h2>
      <p>Bonjour {owner},</p>
      <p>Le projet <strong>{name}</strong> a dépassé son budget !</p>
      <ul>
        <li>Budget prévu : <strong>{format_eur(evaluation["budget"])}</strong></li>
        <li>Total dépensé : <strong>{format_eur(evaluation["total_spent"])}</strong></li>
        <li>Dépassement : <strong style="color: red;">+{format_eur(max(overspent, 0))}</strong> ({evaluation["percentage"]:.0f}%)</li>
      </ul>
      <p>Nombre de dépenses : {evaluation["expense_count"]}</p>
      <p>Consultez votre projet pour plus de détails.</p>
    """
    return subject, html


def render_warning_email(project: dict, evaluation: dict) -> tuple:
    name = escape(project.get("name", ""))
    owner = escape(project.get("owner_name") or "")
    subject = f"Attention au budget - {project.get('name', '')}"
    html = f"""
      <h2>Attention Budget</h2>
      <p>Bonjour {owner},</p>
      <p>Le projet <strong>{name}</strong> approche de son budget limite.</p>
      <ul>
        <li>Budget prévu : <strong>{format_eur(evaluation["budget"])}</strong></li>
        <li>Total dépensé : <strong>{format_eur(evaluation["total_spent"])}</strong></li>
        <li>Utilisation : <strong style="color: orange;">{evaluation["percentage"]:.0f}%</strong></li>
        <li>Restant : <strong>{format_eur(evaluation["remaining"])}</strong></li>
      </ul>
      <p>Nombre de dépenses : {evaluation["expense_count"]}</p>
    """
    return subject, html


# ============================================================
# DAILY DIGEST
# ============================================================
def _digest_row(entry: dict) -> str:
    style = STATUS_STYLE.get(entry["status"], STATUS_STYLE["warning"])
    return f"""
      <tr style="border-bottom: 1px solid #e5e7eb;">
        <td style="padding: 15px 10px;">
          <div style="font-weight: bold; color: #111827; margin-bottom: 4px;">{escape(entry["name"])}</div>
          <div style="font-size: 12px; color: #6b7280;">{entry["expense_count"]} dépenses</div>
        </td>
        <td style="padding: 15px 10px; text-align: right;">
          <div style="font-weight: bold; color: #3b82f6;">{format_eur(entry["budget"])}</div>
        </td>
        <td style="padding: 15px 10px; text-align: right;">
          <div style="font-weight: bold; color: {style["color"]};">{format_eur(entry["total_spent"])}</div>
        </td>
        <td style="padding: 15px 10px; text-align: right;">
          <div style="display: inline-block; background: {style["bg"]}; color: {style["color"]}; padding: 4px 12px; border-radius: 12px; font-size: 12px; font-weight: bold;">
            {round(entry["percentage"])}% - {style["label"]}
          </div>
        </td>
      </tr>"""


def render_daily_report_email(owner_name: str, projects: list, today: date = None) -> tuple:
    """Digest for one owner. `projects` must already be sorted by percentage desc."""
    today = today or date.today()
    over = sum(1 for p in projects if p["status"] == "over")
    at_risk = sum(1 for p in projects if p["status"] == "warning")
    n = len(projects)
    subject = f"Rapport budgétaire quotidien - {n} projet{'s' if n > 1 else ''} à surveiller"
    rows = "".join(_digest_row(p) for p in projects)
    html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 700px; margin: 0 auto; background: #ffffff;">
      <div style="background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 40px 30px; text-align: center; border-radius: 10px 10px 0 0;">
        <h1 style="color: white; margin: 0; font-size: 32px;">Rapport Budgétaire Quotidien</h1>
        <p style="color: rgba(255,255,255,0.9); margin: 10px 0 0 0; font-size: 16px;">{format_date_fr(today)}</p>
      </div>
      <div style="background: #f8f9fa; padding: 30px; border-radius: 0 0 10px 10px;">
        <p style="font-size: 16px; color: #333; margin-bottom: 20px;">Bonjour {escape(owner_name or "")},</p>
        <p style="font-size: 16px; color: #333; margin-bottom: 30px;">
          Voici le résumé de vos projets nécessitant une attention particulière :
        </p>
        <div style="display: flex; gap: 15px; margin-bottom: 30px;">
          <div style="flex: 1; background: white; padding: 20px; border-radius: 8px; text-align: center; border-left: 4px solid #dc2626;">
            <div style="font-size: 28px; font-weight: bold; color: #dc2626; margin-bottom: 5px;">{over}</div>
            <div style="font-size: 14px; color: #6b7280;">Budget dépassé</div>
          </div>
          <div style="flex: 1; background: white; padding: 20px; border-radius: 8px; text-align: center; border-left: 4px solid #f59e0b;">
            <div style="font-size: 28px; font-weight: bold; color: #f59e0b; margin-bottom: 5px;">{at_risk}</div>
            <div style="font-size: 14px; color: #6b7280;">À risque (≥80%)</div>
          </div>
        </div>
        <div style="background: white; border-radius: 8px; overflow: hidden; box-shadow: 0 1px 3px rgba(0,0,0,0.1);">
          <table style="width: 100%; border-collapse: collapse;">
            <thead>
              <tr style="background: #f3f4f6;">
                <th style="padding: 15px 10px; text-align: left; font-size: 12px; color: #6b7280;">Projet</th>
                <th style="padding: 15px 10px; text-align: right; font-size: 12px; color: #6b7280;">Budget</th>
                <th style="padding: 15px 10px; text-align: right; font-size: 12px; color: #6b7280;">Dépensé</th>
                <th style="padding: 15px 10px; text-align: right; font-size: 12px; color: #6b7280;">Statut</th>
              </tr>
            </thead>
            <tbody>{rows}
            </tbody>
          </table>
        </div>
        <div style="text-align: center; margin-top: 30px;">
          <a href="{APP_URL}/projects" style="background: #3b82f6; color: white; padding: 14px 40px; text-decoration: none; border-radius: 6px; font-weight: bold; display: inline-block;">
            Voir tous mes projets
          </a>
        </div>
        <div style="margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; text-align: center;">
          <p style="color: #9ca3af; font-size: 12px; margin: 0;">
            Ce rapport est généré automatiquement chaque jour.<br>
            Budget Tracker - Gestion de budget simplifiée
          </p>
        </div>
      </div>
    </div>
    """
    return subject, html
