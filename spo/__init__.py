"""
Supabase project operator.

Reconciles SupabaseProject custom resources into a running set of Supabase components.
"""
