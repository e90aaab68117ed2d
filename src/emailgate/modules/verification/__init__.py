"""
Verification domain: per-user session state machine, OTP rules, role
grant preflight, mail delivery and persistence.
"""
