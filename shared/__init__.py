"""
Question data model and error types shared by the API and the upload pipeline.
"""
