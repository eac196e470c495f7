"""AI assistant that acts on a user's connected SaaS tools."""
