from vana_permissions import PermissionsController, load_config_from_env, setup_logger

# Reads VANA_PRIVATE_KEY, VANA_CHAIN_ID, VANA_RELAYER_URL, ... from the environment / .env
config = load_config_from_env()
grantee = "0x0000000000000000000000000000000000000000"  # Replace with a registered grantee

setup_logger()


async def main():
    async with PermissionsController.from_config(config) as controller:
        preview = await controller.prepare_grant({
            "grantee": grantee,
            "operation": "llm_inference",
            "files": [1, 2, 3],
            "parameters": {"prompt": "Summarize my data", "model": "gpt-4"},
        })
        print(f"Granting {preview.operation} on {preview.file_count} files to {preview.grantee}")

        tx = await preview.confirm()
        event = await tx.wait_for_events()
        print("Permission added:", event["permissionId"], "tx:", tx)

        revoke = await controller.revoke(event["permissionId"])
        print("Revoked:", await revoke.wait_for_events())

        permissions = await controller.get_user_permissions()
        return [p.id for p in permissions.items if p.is_active]


if __name__ == "__main__":
    import asyncio
    active = asyncio.run(main())
    print("Active permissions:", active)
