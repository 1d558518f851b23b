# Maintenance scripts module
