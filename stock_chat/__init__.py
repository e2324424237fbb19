"""Command interpretation and reconciliation engine for the stock chat."""
