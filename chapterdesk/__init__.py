from flask import Flask
from flask_mail import Mail
from chapterdesk.extensions import db, login_manager, migrate
from chapterdesk.models import User

mail = Mail()


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object("config.Config")
    if config_overrides:
        app.config.update(config_overrides)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Email configuration
    app.config.setdefault("MAIL_SERVER", "smtp.gmail.com")
    app.config.setdefault("MAIL_PORT", 587)
    app.config.setdefault("MAIL_USE_TLS", True)
    app.config.setdefault("MAIL_DEFAULT_SENDER", app.config.get("MAIL_USERNAME") or "noreply@chapterdesk.local")

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)

    with app.app_context():
        db.create_all()
        admin_emails = [e for e in app.config.get("ADMIN_EMAILS", []) if e]
        if admin_emails:
            promoted = 0
            for user in User.query.filter(User.email.in_(admin_emails)).all():
                if user.role != "admin":
                    user.role = "admin"
                    promoted += 1
            if promoted:
                db.session.commit()
                app.logger.info("Promoted %s configured admin account(s)", promoted)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    from chapterdesk import notifications
    notifications.register(app)

    # Register Blueprints
    from chapterdesk.routes import main
    app.register_blueprint(main)

    return app
