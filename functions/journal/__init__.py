"""
Backend package for the Journey Diary API.

This package provides a FastAPI application that proxies Cloudinary and
OpenStreetMap services, plus Firestore/Cloudinary abstractions shared with
the Cloud Functions and the admin scripts.
"""
