"""OAuth2 authorization-code + PKCE endpoints."""

from flask import Blueprint, jsonify, redirect, request

from authcenter.services.oauth import AuthorizationRedirect, OAuthService
from utils.auth_middleware import get_bearer_token

bp = Blueprint('oauth', __name__)


@bp.route('/authorize', methods=['GET'])
def authorize():
    try:
        location = OAuthService().authorize(request.args)
    except AuthorizationRedirect as e:
        return redirect(e.location)
    return redirect(location)


@bp.route('/oauth/token', methods=['POST'])
def token():
    params = request.get_json(silent=True) or request.form.to_dict()
    response = jsonify(OAuthService().token(params))
    response.headers["Cache-Control"] = "no-store"
    return response


@bp.route('/oauth/validate', methods=['GET'])
def validate():
    return jsonify(OAuthService.validate(get_bearer_token()))
