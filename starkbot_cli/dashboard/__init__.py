"""Interactive module dashboards: raw terminal, push updates and the session loop."""
