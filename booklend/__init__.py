import click
from flask import Flask, jsonify

from booklend.clock import SystemClock
from booklend.config import Config
from booklend.errors import LendingError
from booklend.extensions import db, jwt, mail, migrate


def create_app(config=Config, clock=None):
    app = Flask(__name__)
    app.config.from_object(config)

    # 1) extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    mail.init_app(app)

    app.extensions["booklend.clock"] = clock or SystemClock()

    # 2) models must be imported before create_all
    from booklend.models import borrow, notification_log, title, user  # noqa: F401

    if app.config.get("AUTO_CREATE_TABLES"):
        with app.app_context():
            db.create_all()

    # 3) realtime layer: change feed + per-viewer notification subscriptions
    from booklend.services.change_feed import ChangeFeed
    from booklend.services.notification_center import NotificationCenter

    feed = ChangeFeed(app)
    NotificationCenter(feed=feed, app=app)

    # 4) blueprints
    from booklend.controllers.auth_controller import auth_bp
    from booklend.controllers.borrow_controller import borrow_bp
    from booklend.controllers.fine_controller import fine_bp
    from booklend.controllers.notification_controller import notif_bp
    from booklend.controllers.title_controller import title_bp
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(title_bp, url_prefix="/titles")
    app.register_blueprint(borrow_bp, url_prefix="/borrows")
    app.register_blueprint(fine_bp, url_prefix="/fines")
    app.register_blueprint(notif_bp, url_prefix="/notifications")

    @app.errorhandler(LendingError)
    def handle_lending_error(e: LendingError):
        db.session.rollback()
        if e.status_code >= 500:
            app.logger.warning(f"[api] {e.kind}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.get("/health")
    def health():
        return jsonify({"ok": True})

    @app.cli.command("create-librarian")
    @click.argument("username")
    @click.argument("email")
    @click.password_option()
    def create_librarian(username, email, password):
        """Create a librarian account."""
        from booklend.models.enums import Role
        from booklend.services.auth_service import AuthService

        user = AuthService.register(username, email, password, role=Role.LIBRARIAN)
        click.echo(f"librarian {user.username} created (id={user.id}, short_id={user.short_id})")

    @app.cli.command("sweep")
    @click.argument("user_id", type=int)
    def sweep(user_id):
        """Run the due/overdue sweep for one user now."""
        from booklend.tasks.due_sweep import sweep_user

        report = sweep_user(user_id)
        click.echo(f"checked={report.checked} due_soon={report.due_soon} "
                   f"newly_overdue={report.newly_overdue} reminders={report.overdue_reminders}")

    # 5) periodic due/overdue sweep
    from booklend.tasks.scheduler import start_scheduler
    start_scheduler(app)

    return app
