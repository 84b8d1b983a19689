"""
Services

Cliente HTTP compartido por los VUs y preflight del servicio objetivo.
"""
