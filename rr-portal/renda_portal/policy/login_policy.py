from dataclasses import dataclass


@dataclass(frozen=True)
class LoginPolicy:
    # Display thresholds only; lockout counting lives in the backend
    warn_from_failures: int = 3               # banner once failed_count >= 3 ...
    warn_at_or_below_remaining: int = 3       # ... and remaining_attempts <= 3
    low_attempts_after_failure: int = 2       # submit-time warning when remaining <= 2

    # Field limits
    email_max_length: int = 255
    password_min_length: int = 6
    password_max_length: int = 72
    name_min_length: int = 2
    name_max_length: int = 100

    # Copy you want for UI (pt-BR)
    msg_error_title: str = "Erro"
    msg_blocked_title: str = "Conta bloqueada"
    msg_blocked: str = (
        "Sua conta foi bloqueada por excesso de tentativas de login. "
        "Entre em contato com o suporte para desbloquear."
    )
    msg_locked_title: str = "Conta temporariamente bloqueada"
    msg_locked: str = "Muitas tentativas incorretas. Tente novamente {when}."
    msg_locked_unknown: str = "Muitas tentativas incorretas. Tente novamente mais tarde."
    msg_low_attempts_title: str = "Atenção"
    msg_low_attempts: str = "Restam {n} tentativa(s) antes do bloqueio temporário da sua conta."
    msg_captcha_required: str = "Verificação de segurança necessária para continuar."
    msg_captcha_failed: str = "Falha na verificação de segurança. Tente novamente."
    msg_invalid_credentials: str = "E-mail ou senha incorretos."

    msg_email_required: str = "Informe seu e-mail."
    msg_email_invalid: str = "E-mail inválido."
    msg_email_too_long: str = "O e-mail deve ter no máximo {n} caracteres."
    msg_password_too_short: str = "A senha deve ter pelo menos {n} caracteres."
    msg_password_too_long: str = "A senha deve ter no máximo {n} caracteres."
    msg_name_too_short: str = "O nome deve ter pelo menos {n} caracteres."
    msg_name_too_long: str = "O nome deve ter no máximo {n} caracteres."

    msg_login_success: str = "Login realizado com sucesso!"
    msg_signup_success_title: str = "Cadastro realizado!"
    msg_signup_success: str = "Verifique seu email para confirmar a conta."
    msg_reset_sent: str = "Se o e-mail estiver cadastrado, você receberá um link para redefinir a senha."
    msg_password_updated: str = "Senha atualizada com sucesso."
    msg_passwords_mismatch: str = "As senhas não coincidem."
    msg_password_reset_done_title: str = "Senha alterada com sucesso!"
    msg_password_reset_done: str = "Você já pode fazer login com sua nova senha."
    msg_recovery_link_invalid: str = "Link de recuperação inválido ou expirado. Solicite um novo."
    msg_in_progress: str = "Aguarde, sua solicitação está sendo processada."
    msg_service_unavailable: str = "Serviço temporariamente indisponível. Tente novamente em instantes."
    msg_account_blocked_default: str = "Sua conta foi bloqueada pelo administrador."
