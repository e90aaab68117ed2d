"""Member-facing texts for the non-error steps of verification and settings."""

EMAIL_PROMPT = "📧 Please provide your email address for verification."
CODE_SENT = (
    "✅ Verification code sent! Please check your email and reply with the 6-digit code."
)
VERIFIED = (
    "🎉 Your email has been successfully verified! You now have access to all channels."
)
NO_ACTIVE_SESSION = (
    "❌ No active verification found. Please start with `.verify` command."
)
DM_UNREACHABLE = "I could not send you a DM. Please check your privacy settings."
WELCOME = (
    "Welcome! Please verify your email address by using the `.verify` command in the server."
)

ONJOIN_ENABLED = "Verification on join has been enabled."
ONJOIN_DISABLED = "Verification on join has been disabled."
DOMAIN_ADDED = "Domain {domain} has been added."
DOMAIN_REMOVED = "Domain {domain} has been removed."
ROLE_CHANGED = "Verified role has been changed to {role}."
MISSING_DOMAIN_ADD = "Please provide a domain to add."
MISSING_DOMAIN_REMOVE = "Please provide a domain to remove."
MISSING_ROLE = "Please provide the name of the new verified role."

EMAIL_SUBJECT = "Email Verification Code"

EMAIL_HTML = """\
<div style="font-family: Arial, sans-serif; text-align: center; max-width: 600px; \
margin: auto; padding: 20px; border: 1px solid #ddd; border-radius: 10px;">
  <h2>Account Verification</h2>
  <p>Hello, <b>{email}</b></p>
  <p>Please verify your Discord account with the code below:</p>
  <p style="font-size: 24px; font-weight: bold; letter-spacing: 3px; background: #f5f5f5; \
padding: 10px; border-radius: 5px; display: inline-block;">{code}</p>
  <p>This code will expire in {minutes} minutes. Please do not share it with anyone.</p>
  <p>If you did not make this request, please ignore this email.</p>
</div>
"""

EMAIL_TEXT = (
    "Hello, {email}\n\n"
    "Your verification code is: {code}\n\n"
    "This code will expire in {minutes} minutes. "
    "Please do not share it with anyone.\n"
    "If you did not make this request, please ignore this email.\n"
)
