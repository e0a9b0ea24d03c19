"""
Manifest builders for the seven components of a Supabase project.
"""
