"""
F1 stats dashboard: OpenF1 client, season aggregates and live track playback.
"""
