"""
Services package.

Adapters to everything outside the process: the database, the Gemini
API, the WhatsApp gateway and Google Sheets. Import from the subpackages.
"""
