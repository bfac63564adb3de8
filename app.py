from plastic_watch import create_app
from plastic_watch.extensions import db, socketio

app = create_app()


# ---------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------
if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    socketio.run(app, host='0.0.0.0', port=5000, debug=True)
