"""Storage - annotation cache stores"""
