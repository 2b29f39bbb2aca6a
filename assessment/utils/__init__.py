"""
Collaborators of the assessment core: storage, clock, events, i18n
"""
