from flask import current_app
from flask_mail import Message
from extensions import mail


def frontend_link(path):
    base = current_app.config.get('FRONTEND_URL', 'http://localhost:5173').rstrip('/')
    return f"{base}{path}"


def send_email(subject, recipients, body):
    """Send a plain-text email. Raises on SMTP failure; callers decide whether that matters."""
    msg = Message(subject, recipients=recipients)
    msg.body = body
    mail.send(msg)


def verification_email_body(name, link):
    return f'''Hello {name},

Welcome to FoodShare!

To activate your account, please verify your email by clicking the link below:

{link}

If you did not register, please ignore this email.
'''


def reset_email_body(link):
    return f'''Hello,

We received a request to reset your FoodShare password. Click the link below to choose a new one:

{link}

This link expires in 1 hour. If you did not ask for a reset, you can ignore this email.
'''


def claim_email_body(food_name, ngo_name):
    return f'''Hello,

Good news! Your donation "{food_name}" has been claimed by {ngo_name}.

They will contact you to arrange the pickup. You can follow its progress from your dashboard:

{frontend_link('/donor/donations')}

Thank you for reducing food waste.
'''


def send_verification_email(user):
    token = user.get_token('verify')
    link = frontend_link(f"/verify-email?token={token}")
    send_email('Verify Your Email - FoodShare', [user.email],
               verification_email_body(user.display_name, link))


def send_password_reset_email(user):
    token = user.get_token('reset', expires_sec=3600)
    link = frontend_link(f"/reset-password?token={token}")
    send_email('Reset Your Password - FoodShare', [user.email], reset_email_body(link))
