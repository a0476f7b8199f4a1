"""Dashboard metrics"""
