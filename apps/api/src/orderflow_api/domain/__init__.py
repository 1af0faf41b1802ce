"""Pure domain helpers shared by services, boards and endpoints."""
