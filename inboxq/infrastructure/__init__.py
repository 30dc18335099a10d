"""Runtime settings shared across the API and pipeline"""
