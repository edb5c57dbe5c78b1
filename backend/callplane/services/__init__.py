"""
Services Package

- call/: call-session lifecycle state machine and session persistence
- quota/: quota-gated admission control
- livekit/: room provider and credential issuer adapters
- features/: agent feature store and assigned-agent directory
"""
