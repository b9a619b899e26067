"""Auto-fill engine for PDF templates: placeholder tokens or AcroForm fields."""
