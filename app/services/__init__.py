"""Cart, scheduling and order services"""
