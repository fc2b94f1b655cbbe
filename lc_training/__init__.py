"""
Learning curve training for annotated-document classifiers
"""

__version__ = '1.0.0'
