from stytch_relay.discovery import (
    ENDPOINTS, LOCAL, get_catalog, get_endpoint, get_tool_names, search_endpoints,
)

EXPECTED_TOOLS = {
    "whoami",
    "getAllProjects", "getProject", "createProject", "getProjectCredentials",
    "createPublicToken", "getAllPublicTokens", "deletePublicToken",
    "createRedirectURL", "getAllRedirectURLs", "getRedirectURL", "updateRedirectURL", "deleteRedirectURL",
    "getSecret", "getAllSecrets", "createSecret", "deleteSecret",
    "createEmailTemplate", "getEmailTemplate", "getAllEmailTemplates", "updateEmailTemplate",
    "deleteEmailTemplate",
    "getPasswordStrengthConfig", "setPasswordStrengthConfig",
    "getSDKConfig", "setSDKConfig",
    "searchUsers", "getWeather",
}


def test_catalog_names_are_unique_and_complete():
    names = get_tool_names()
    assert len(names) == len(set(names))
    assert set(names) == EXPECTED_TOOLS


def test_every_relayed_endpoint_has_a_result_format():
    for endpoint in ENDPOINTS:
        if endpoint.target == LOCAL:
            continue
        assert endpoint.label or endpoint.done, endpoint.name
        if endpoint.method == "DELETE":
            assert endpoint.done, endpoint.name


def test_path_placeholders_are_model_fields():
    for endpoint in ENDPOINTS:
        fields = set(endpoint.params.model_fields)
        placeholders = {part.split("}")[0] for part in endpoint.path.split("{")[1:]}
        assert placeholders <= fields, endpoint.name


def test_get_endpoint():
    assert get_endpoint("deleteSecret").method == "DELETE"
    assert get_endpoint("nope") is None


def test_search_matches_name_resource_and_description():
    names = {r["tool"] for r in search_endpoints("redirect")}
    assert names == {
        "createRedirectURL", "getAllRedirectURLs", "getRedirectURL", "updateRedirectURL", "deleteRedirectURL",
    }
    assert {r["tool"] for r in search_endpoints("WEATHER")} == {"getWeather"}


def test_catalog_groups_by_resource():
    catalog = get_catalog()
    assert catalog["tool_count"] == len(ENDPOINTS)
    secrets = {t["tool"] for t in catalog["resources"]["secrets"]}
    assert secrets == {"getSecret", "getAllSecrets", "createSecret", "deleteSecret"}
