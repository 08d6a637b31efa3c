"""Streamlit user interface."""
