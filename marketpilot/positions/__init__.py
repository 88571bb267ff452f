from marketpilot.positions.tracker import assess, pair_status

__all__ = ["assess", "pair_status"]
