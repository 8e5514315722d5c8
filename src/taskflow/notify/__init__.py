"""Outbound notifications: mail relay client, mailto composition, assignment and test sends."""
