"""dockship - deploy a containerized Git project to a single remote host."""

__version__ = "0.1.0"
