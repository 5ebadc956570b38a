"""Terminal rendering of session analytics views."""
