"""
Regatta tracker: position enrichment and race progress for boats sailing rounds
"""
