"""Order lifecycle rules and the cancellation workflow"""
