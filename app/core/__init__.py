"""Application core: settings, database, errors, logging and metrics"""
