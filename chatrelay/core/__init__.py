"""Core relay logic: conversation window, addressing, request/response handling."""
