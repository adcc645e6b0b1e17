"""Live caption service: transcript snapshots segmented into caption turns."""
