"""
创建环境变量文件
用于快速设置分析工具的配置
"""

import sys
from datetime import datetime
from pathlib import Path

from prompts import DEFAULT_INSIGHT_PROMPT_TEMPLATE

PROVIDER_DEFAULTS = {
    "openai": {
        "key_var": "OPENAI_API_KEY",
        "model_var": "OPENAI_MODEL",
        "model": "gpt-4o-mini",
        "base_line": "OPENAI_API_BASE=https://api.openai.com/v1",
    },
    "gemini": {
        "key_var": "GEMINI_API_KEY",
        "model_var": "GEMINI_MODEL",
        "model": "gemini-2.5-flash",
        "base_line": "GEMINI_SAFETY_SETTINGS=BLOCK_ONLY_HIGH",
    },
}


def render_env(
    api_provider: str,
    api_key: str = "",
    proxy_url: str = "",
    insights_enabled: bool = False,
) -> str:
    """生成 .env 文件内容"""
    if api_provider not in PROVIDER_DEFAULTS:
        raise ValueError(f"不支持的API提供商: {api_provider}")
    provider = PROVIDER_DEFAULTS[api_provider]

    date_str = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    content = f"""# 故事结构分析工具配置文件
# 自动生成于 {date_str}

# 补充分析使用的API提供商
API_PROVIDER={api_provider}

{provider['key_var']}={api_key or f'your_{api_provider}_api_key_here'}
{provider['model_var']}={provider['model']}
{provider['base_line']}
"""

    if proxy_url:
        content += f"""
# 代理配置
USE_PROXY=true
PROXY_URL={proxy_url}
"""
    else:
        content += """
# 代理配置
USE_PROXY=false
# PROXY_URL=http://127.0.0.1:7890
"""

    content += f"""
# 分析参数（一般无需修改）
ANALYSIS_PARALLEL=false
ANALYSIS_MAX_WORKERS=4
MAX_RETRY=3
INSIGHTS_ENABLED={'true' if insights_enabled else 'false'}
# ANALYSIS_WEIGHTS_FILE=weights.json
"""

    template_env = DEFAULT_INSIGHT_PROMPT_TEMPLATE.replace("\n", "\\n")
    content += f"""
# 补充分析提示词（使用 {{instructions}}/{{content}}/{{graph}} 占位符，\\n 表示换行）
INSIGHT_PROMPT_TEMPLATE={template_env}
"""
    return content


def create_env_file(env_file: Path = Path(".env")):
    """交互式创建 .env 文件"""
    if env_file.exists():
        print(f"⚠️  {env_file} 已存在")
        response = input("是否覆盖？(y/n): ").strip().lower()
        if response not in ["y", "yes"]:
            print("操作已取消")
            return

    print("\n" + "=" * 60)
    print("故事结构分析工具 - 初始化配置")
    print("=" * 60)
    print("\n结构分析本身不需要API密钥，只有补充分析（--insights）会调用大模型。")

    print("\n请选择补充分析的API提供商:")
    print("1. OpenAI (需要国外网络或代理)")
    print("2. Google Gemini (需要国外网络或代理)")

    while True:
        choice = input("\n请选择 (1/2): ").strip()
        if choice == "1":
            api_provider = "openai"
            break
        elif choice == "2":
            api_provider = "gemini"
            break
        else:
            print("无效选择，请输入 1 或 2")

    print(f"\n请输入你的 {api_provider.upper()} API 密钥:")
    print("(留空则稍后手动配置)")
    api_key = input("API密钥: ").strip()

    proxy_url = ""
    if input("\n是否使用代理？(y/n，默认n): ").strip().lower() in ["y", "yes"]:
        proxy_url = input("代理地址 (例: http://127.0.0.1:7890): ").strip()

    insights_enabled = input("\n是否默认开启补充分析？(y/n，默认n): ").strip().lower() in ["y", "yes"]

    try:
        env_file.write_text(
            render_env(api_provider, api_key, proxy_url, insights_enabled),
            encoding="utf-8",
        )
    except OSError as e:
        print(f"\n❌ 创建文件失败: {e}")
        return

    print(f"\n✅ 配置文件已创建: {env_file}")
    if not api_key:
        print(f"\n⚠️  请编辑 {env_file} 文件，填入你的API密钥")
        print(f"   {PROVIDER_DEFAULTS[api_provider]['key_var']}=your_api_key_here")

    print("\n下一步:")
    print("1. 安装依赖: pip install -e .")
    print("2. 运行程序: python main.py snapshot.json")


def show_help():
    """显示帮助信息"""
    print(
        """
故事结构分析工具 - 配置助手

用法:
  python create_env.py     创建 .env 配置文件

支持的API提供商（仅补充分析使用）:
  1. OpenAI - 获取密钥: https://platform.openai.com/api-keys
  2. Google Gemini - 获取密钥: https://makersuite.google.com/app/apikey

示例:
  # 使用OpenAI + 代理
  API_PROVIDER=openai
  OPENAI_API_KEY=your_api_key_here
  USE_PROXY=true
  PROXY_URL=http://127.0.0.1:7890

  # 使用自定义评分权重
  ANALYSIS_WEIGHTS_FILE=weights.json
"""
    )


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] in ["-h", "--help", "help"]:
        show_help()
    else:
        create_env_file()
