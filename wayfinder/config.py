"""Configuration settings for Wayfinder."""

CONFIG = {
    "db_path": "wayfinder.db",
    # Recording filter
    "sample_epsilon": 1e-5,        # plane units (degrees) - drops sub-meter jitter
    "min_recording_points": 10,    # recorded polyline must reach this many points
    "min_road_points": 2,          # any persisted road
    # Route synthesis (greedy nearest-anchor walk)
    "route_max_iterations": 100,
    "route_arrival_threshold": 1e-3,    # plane units - close enough to the end anchor
    "route_adjacency_threshold": 1e-3,  # plane units - directly reachable from current point
    # Cross-view sync
    "store_poll_interval": 3,  # seconds
    # Location
    "location_timeout": 10,         # seconds - one-shot fix budget
    "live_location_interval": 2,    # seconds between live samples
    "termux_provider": "gps",       # termux-location -p: gps, network or passive
    "default_location": (0.0, 0.0),  # fallback when the position source fails
    "default_zoom": 2,
    "located_zoom": 16,
    "guest_zoom": 15,
    # Live browser map
    "http_port": 8080,
    "ws_port": 8765,
    "admin_secret_env": "WAYFINDER_ADMIN_SECRET",
}
