from image_variant_engine import ORIGINAL, size_names


class AssetUrlBuilder:
    def __init__(self, base_path: str = "/api/images"):
        self.base_path = base_path.rstrip("/")

    def base_url(self, asset_id) -> str:
        return f"{self.base_path}/{asset_id}"

    def urls(self, asset_id, token: str | None = None) -> dict[str, str]:
        """Per-size URLs; with a token they work for private assets too."""
        base = self.base_url(asset_id)
        token_param = f"token={token}" if token else ""

        urls = {}
        for name in size_names():
            params = [] if name == ORIGINAL else [f"size={name}"]
            if token_param:
                params.append(token_param)
            urls[name] = f"{base}?{'&'.join(params)}" if params else base

        urls["info"] = f"{base}/info?{token_param}" if token_param else f"{base}/info"
        return urls
