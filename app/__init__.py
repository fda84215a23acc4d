"""Vendora marketplace API"""
