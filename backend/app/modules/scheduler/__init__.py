# Periodic jobs run by Celery beat
