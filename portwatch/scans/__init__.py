# portwatch/scans/__init__.py
