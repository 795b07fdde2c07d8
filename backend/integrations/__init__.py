"""External API integrations.

This package contains:
- Fasten Connect client: connect URLs, connection status, EHI export
  requests and export downloads
- FHIR resource models: typed views of the records in an EHI export
- Parsing utilities shared by the FHIR extractors
"""
