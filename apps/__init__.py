"""Application modules for CampusCache."""
