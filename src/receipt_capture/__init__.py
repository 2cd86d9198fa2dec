"""Receipt OCR extraction, normalization and submission."""
