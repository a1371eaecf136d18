# Notification delivery tasks
