from stackup.PARSERS.env_parser import EnvParser, load_environment

def test_parse_from_string():
    content = """
    KEY1=VALUE1
    KEY2 = VALUE2
    # This is a comment
    KEY3="VALUE3" # Trailing comment
    KEY4='VALUE4'
    export KEY6=exported
    """
    env = EnvParser.parse_from_string(content)
    assert env['KEY1'] == 'VALUE1'
    assert env['KEY2'] == 'VALUE2'
    assert env['KEY3'] == 'VALUE3'
    assert env['KEY4'] == 'VALUE4'
    assert env['KEY6'] == 'exported'
    assert 'KEY5' not in env

def test_placeholders_are_kept_verbatim():
    env = EnvParser.parse_from_string("URL=jdbc:postgresql://${DB_HOST}:5432/app\n")
    assert env['URL'] == 'jdbc:postgresql://${DB_HOST}:5432/app'

def test_bare_key_is_unset():
    env = EnvParser.parse_from_string("BARE\nSET=1\n")
    assert 'BARE' not in env
    assert env['SET'] == '1'

def test_missing_file_is_empty(tmp_path):
    assert EnvParser.parse(str(tmp_path / ".env")) == {}

def test_load_environment_overrides_file(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("POSTGRES_USER=app\nPOSTGRES_DB=appdb\n")
    env = load_environment(str(env_file), {"POSTGRES_DB": "override"})
    assert env == {"POSTGRES_USER": "app", "POSTGRES_DB": "override"}
