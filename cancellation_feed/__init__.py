"""Build GTFS-RT trip cancellations from transit service alerts."""
