"""
POS 点单收银后端服务
"""
