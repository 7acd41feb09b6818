"""
APQP Document Traceability Service
AI package: optional narrative-text generation for generated documents.
"""
