"""
Status and condition model for SupabaseProject resources.
"""
