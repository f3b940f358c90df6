"""
DocPilot Backend - Appwrite schema provisioning and serverless functions

Provisions the DocPilot database on an Appwrite project and serves the
prescription and certificate functions used by the DocPilot app.
"""

__version__ = "1.0.0"
