"""
Candidate pipeline and interview lifecycle service.
"""
