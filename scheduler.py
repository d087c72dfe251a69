from extensions import db, scheduler
from services.notifications import send_pickup_reminders


# ==========================================
#  TASK: PICKUP REMINDERS
# ==========================================
# Runs every 15 minutes
@scheduler.task('cron', id='pickup_reminders', minute='*/15')
def pickup_reminder_job():
    """
    Reminds NGOs whose pickup window opens within the next hour.
    Each claim is reminded once.
    """
    # We must use scheduler.app.app_context() because this runs in the background
    with scheduler.app.app_context():
        try:
            sent = send_pickup_reminders()
        except Exception as e:
            db.session.rollback()
            scheduler.app.logger.error("Pickup reminder job failed: %s", e)
            return
        if sent:
            scheduler.app.logger.info("Scheduler: sent %d pickup reminders", len(sent))
