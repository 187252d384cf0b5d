"""Multi-department onboarding questionnaire service"""

__version__ = "1.0.0"
