"""
archilex/features/notifications/templates.py

Greek e-mail bodies for usage thresholds and plan upgrades.
"""

from archilex.core.config import settings
from archilex.models.notification import EmailContent, NotificationKind

_LAYOUT = (
    '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; '
    'border: 1px solid #e5e7eb; border-radius: 8px;">'
    '<h2 style="color: {color};">{title}</h2>'
    "{body}"
    '<div style="margin: 30px 0;">'
    '<a href="{url}" style="background-color: #1d4ed8; color: white; padding: 12px 24px; '
    'text-decoration: none; border-radius: 6px; font-weight: bold;">{cta}</a>'
    "</div></div>"
)


def _dashboard_url() -> str:
    return f"{settings.APP_URL.rstrip('/')}/dashboard"


def usage_warning(usage_count: int, quota: int) -> EmailContent:
    body = (
        "<p>Σας ενημερώνουμε ότι έχετε χρησιμοποιήσει το <strong>80%</strong> του μηνιαίου ορίου σας.</p>"
        f"<p>Τρέχουσα χρήση: <strong>{usage_count} / {quota}</strong></p>"
        "<p>Για να αποφύγετε τη διακοπή της πρόσβασης στα εργαλεία, μπορείτε να αναβαθμίσετε το πλάνο σας.</p>"
    )
    return EmailContent(
        subject="Πλησιάζετε το όριό σας - ArchiLex",
        html=_LAYOUT.format(color="#d97706", title="Ενημέρωση Χρήσης", body=body, url=_dashboard_url(), cta="Αναβάθμιση Πλάνου"),
        text=f"Έχετε χρησιμοποιήσει το 80% του μηνιαίου ορίου σας ({usage_count} / {quota}).",
    )


def usage_limit_reached(quota: int) -> EmailContent:
    body = (
        f"<p>Έχετε φτάσει στο μέγιστο όριο των <strong>{quota}</strong> χρήσεων για αυτόν τον μήνα.</p>"
        "<p>Η πρόσβαση στα AI εργαλεία έχει περιοριστεί μέχρι την αρχή του επόμενου μήνα ή την αναβάθμιση του πλάνου σας.</p>"
    )
    return EmailContent(
        subject="Εξαντλήσατε το όριό σας - Αναβαθμίστε - ArchiLex",
        html=_LAYOUT.format(color="#dc2626", title="Εξάντληση Ορίου", body=body, url=_dashboard_url(), cta="Αναβάθμιση τώρα"),
        text=f"Έχετε φτάσει στο μέγιστο όριο των {quota} χρήσεων για αυτόν τον μήνα.",
    )


def upgrade_success(plan_name: str) -> EmailContent:
    body = (
        f"<p>Η αναβάθμιση του λογαριασμού σας στο πλάνο <strong>{plan_name}</strong> ολοκληρώθηκε επιτυχώς.</p>"
        "<p>Τώρα έχετε πρόσβαση σε όλες τις προηγμένες δυνατότητες και το αυξημένο όριο χρήσης.</p>"
    )
    return EmailContent(
        subject="Επιτυχής αναβάθμιση πλάνου - ArchiLex",
        html=_LAYOUT.format(color="#059669", title="Συγχαρητήρια!", body=body, url=_dashboard_url(), cta="Μετάβαση στο Dashboard"),
        text=f"Η αναβάθμιση του λογαριασμού σας στο πλάνο {plan_name} ολοκληρώθηκε επιτυχώς.",
    )


def render_threshold(kind: NotificationKind, usage_count: int, quota: int) -> EmailContent:
    if kind == NotificationKind.USAGE_80:
        return usage_warning(usage_count, quota)
    if kind == NotificationKind.USAGE_100:
        return usage_limit_reached(quota)
    raise ValueError(f"Not a threshold notification: {kind}")
