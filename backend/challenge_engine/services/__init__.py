"""PCN Challenge Engine - Services"""
