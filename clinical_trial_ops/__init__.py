"""
Clinical Trial Operations - monitoring backend for clinical trials

This package provides:
- Trials, sites, signal detections, tasks and notifications over a REST API
- SDTM-like domain data storage with demo data seeding
- A data management simulation (cross-source analysis and query workflow)
- Rule-based central monitor and data manager chat assistants
"""

__version__ = "1.0.0"
__author__ = "Clinical Trial Operations Team"
