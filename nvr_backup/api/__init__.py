"""
HTTP surface: health checks and a run trigger for external schedulers.
"""
