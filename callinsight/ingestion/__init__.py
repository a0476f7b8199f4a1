"""Webhook ingestion pipeline"""
