"""Voice provider API clients"""
