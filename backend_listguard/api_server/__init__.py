"""
API server package: HTTP interface for listing intake, the review queue and
community reports. Delegates to the admission pipeline and review services.
"""
