"""
Loyalty ledger entry point.
"""
import os
import sys
import traceback

config_name = os.getenv('FLASK_ENV', 'production')
print(f"[Loyalty] Config: {config_name}")
print(f"[Loyalty] DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'}")

try:
    from loyalty_ledger import create_app
    app = create_app(config_name)
    print(f"[Loyalty] App created, {len(list(app.url_map.iter_rules()))} routes")
except Exception as e:
    print(f"[Loyalty] FATAL ERROR during app creation: {e}")
    traceback.print_exc()
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
