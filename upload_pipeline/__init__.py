"""
Image migration and question upload pipeline.
"""
