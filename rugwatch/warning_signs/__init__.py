"""Risk warnings: models, lifecycle state machine and the warning service."""
