"""Uptimer - endpoint monitoring, alert rules and notifications."""
