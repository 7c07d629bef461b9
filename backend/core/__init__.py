"""Session and workflow data models plus shutdown signalling."""
