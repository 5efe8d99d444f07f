"""
Persistence: ORM models, sessions and demo data seeding
"""
