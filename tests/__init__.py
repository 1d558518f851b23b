"""
GrowGuide Test Suite

Test categories:
- test_db_lifecycle.py - backup, restore and upload
- test_default_accounts.py - default account bootstrap and reset
- test_database_routes.py - admin database API and login
- test_file_lock_manager.py - database locking
- test_env_config.py - configuration
- test_scripts.py - deploy-time scripts
"""
